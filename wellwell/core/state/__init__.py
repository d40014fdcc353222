from wellwell.core.state.comparison import StateComparator, checksum

__all__ = ["StateComparator", "checksum"]
