from .formatter import escape_label_value, format_sample, format_value, metric_family

__all__ = ["format_sample", "format_value", "escape_label_value", "metric_family"]
