"""Traffic Translator.

Turns a live packet stream into fixed-interval traffic feature records for
intrusion-detection model training.
"""

from __future__ import annotations

__version__ = "3.1.0"

__all__ = ["__version__"]
