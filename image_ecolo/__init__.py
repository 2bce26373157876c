"""
image-ecolo - client-side style image optimization pipeline.

Rotate, crop, downscale, blur faces, reduce the palette with dithering and
re-encode, while reporting progress and always showing only the result of
the latest request.
"""

__version__ = "0.1.0"
