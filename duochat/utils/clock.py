def to_ms(seconds: float) -> int:
    """epoch seconds -> epoch milliseconds"""
    return int(seconds * 1000)
