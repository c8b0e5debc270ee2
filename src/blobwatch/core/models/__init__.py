"""
Value types for namespaces, blobs and headers.
"""
from blobwatch.core.models.namespace import Namespace
from blobwatch.core.models.blob import Blob, SubmitOptions
from blobwatch.core.models.header import ExtendedHeader, HeaderEvent

__all__ = ["Namespace", "Blob", "SubmitOptions", "ExtendedHeader", "HeaderEvent"]
