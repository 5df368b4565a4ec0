class RecommendationSourceUnavailable(Exception):
    """A store the recommendation pipeline reads from failed."""

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source} unavailable: {message}")
