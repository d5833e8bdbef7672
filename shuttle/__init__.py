"""
Shuttle — Tick-driven autonomous mission sequencing for a warehouse shuttle robot.
"""

__version__ = "1.0.0"
