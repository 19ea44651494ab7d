"""Attribution engine: pixel matching, confidence scoring, batch processing."""
