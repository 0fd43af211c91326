"""
Wire codec, flame file loading and raster output.
"""
