"""
cloudspec - ephemeral AWS stacks and live-resource assertions for pytest.
"""

__version__ = "0.3.0"
