from .resolver import StreetGeometryResolver, find_intersection
from .stitching import slice_single_segment, stitch_segments

__all__ = ["StreetGeometryResolver", "find_intersection", "slice_single_segment", "stitch_segments"]
