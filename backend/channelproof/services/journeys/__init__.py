"""Journey reconstruction and channel analytics."""
