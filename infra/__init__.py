"""Infrastructure modules for voltrader"""

from .metrics import MetricsRecorder, CycleStats  # noqa: F401
from .symbols import CurrencyRef, parse_currency_id, display_name  # noqa: F401

__all__ = [
	"MetricsRecorder",
	"CycleStats",
	"CurrencyRef",
	"parse_currency_id",
	"display_name",
]
