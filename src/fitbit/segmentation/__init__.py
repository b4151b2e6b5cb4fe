"""Pure segmentation of Fitbit intraday datasets into samples.

None of these functions perform I/O or raise on malformed input; missing or
unusable data yields an empty list.
"""

from src.fitbit.segmentation.calories import split_calories
from src.fitbit.segmentation.heart_rate import block_heart_rate, classify_exertion
from src.fitbit.segmentation.readings import (
    convert_breathing_rate,
    convert_skin_temperature,
    convert_spo2,
)
from src.fitbit.segmentation.sleep import expand_sleep_stages
from src.fitbit.segmentation.steps import block_steps

__all__ = [
    "block_heart_rate",
    "block_steps",
    "classify_exertion",
    "convert_breathing_rate",
    "convert_skin_temperature",
    "convert_spo2",
    "expand_sleep_stages",
    "split_calories",
]
