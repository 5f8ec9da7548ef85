from tsextract.processing.raster_stack import RasterTimeStack
