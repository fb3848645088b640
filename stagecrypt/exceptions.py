"""
Stagecrypt exceptions
"""


class StagecryptException(Exception):
    msg = "Stagecrypt exception"
    short = "error"

    def __init__(self, msg=None, short=None):
        if msg is not None:
            self.msg = msg
        if short is not None:
            self.short = short

    def __str__(self):
        return self.msg


class CryptoKeyError(StagecryptException):
    """
    Used when a master or data key is malformed or the wrong length, or when a
    wrapped data key fails the unwrap integrity check
    """

    msg = "Invalid encryption key"
    short = "bad key"


class FormatError(StagecryptException):
    """
    Used when ciphertext or its encryption metadata cannot be validated, ie
    bad padding, bad block alignment or an authentication tag mismatch. This
    normally means the wrong key or IV, or truncated or corrupted ciphertext.
    """

    msg = "Invalid ciphertext"
    short = "bad format"


class ResourceError(StagecryptException):
    """
    Used when a temporary file or handle cannot be created
    """

    msg = "Unable to create temporary resource"
    short = "no resource"
