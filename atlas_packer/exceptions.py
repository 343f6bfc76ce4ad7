"""Custom exceptions for atlas packing operations"""


class AtlasPackerError(Exception):
    """Base exception for atlas packing errors"""
    pass


class InvalidConfigError(AtlasPackerError, ValueError):
    """Invalid construction parameter (downsample factor, sheet size, cache budget)"""
    pass


class SourceReadError(AtlasPackerError):
    """Source image is missing or cannot be decoded"""

    def __init__(self, image_path, reason: str):
        self.image_path = image_path
        self.reason = reason
        super().__init__(f"Cannot read source image {image_path}: {reason}")


class OversizeTextureError(AtlasPackerError):
    """Texture does not fit on an empty sheet"""

    def __init__(self, texture_id: str, size, sheet_size):
        self.texture_id = texture_id
        self.size = tuple(size)
        self.sheet_size = tuple(sheet_size)
        super().__init__(
            f"Texture {texture_id} ({self.size[0]}x{self.size[1]} incl. padding) "
            f"exceeds sheet size {self.sheet_size[0]}x{self.sheet_size[1]}"
        )
