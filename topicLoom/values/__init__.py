from topicLoom.values.comparison import compare
from topicLoom.values.extractor import extract, to_output_value

__all__ = ["compare", "extract", "to_output_value"]
