"""Converters translating named attributes into mesh operations."""

from .base import ConversionResult, Converter, ConverterMap, DispatchMeta
from .defaults import DEFAULT_GROUP_CONVERTERS

__all__ = [
    "DEFAULT_GROUP_CONVERTERS",
    "ConversionResult",
    "Converter",
    "ConverterMap",
    "DispatchMeta",
]
