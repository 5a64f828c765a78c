"""
Face Pulse – motion-gated rPPG pulse estimation from a cropped face region.

Each video frame is differenced against the previous one to build a decaying
motion accumulation map; the map's total intensity becomes one pulse sample
per frame, a hysteresis state machine turns the samples into heartbeats, and
the inter-beat intervals are clustered into competing BPM hypotheses.
"""

__version__ = "0.1.0"
__author__ = "face_pulse"
