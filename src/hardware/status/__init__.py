"""Link status: sticky error flags, break and idle-timeout detection."""

from .error_classifier import ErrorClassifier
