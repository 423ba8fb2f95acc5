"""
debate_engine
Round pairing and ballot adjudication backend for debate tournaments.
"""

__version__ = "1.0.0"
