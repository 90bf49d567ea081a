"""Storyweaver - keyframe-chained vertical storyboard generation.

Turns a scene reference photo and a face reference into a chain of
identity-locked keyframes, pairs them into scenes, and renders each scene
into a short Veo video segment.
"""

import logging

__version__ = "0.1.0"

logger = logging.getLogger(__name__)
