"""
peereval: Peer-Evaluation and Course Group Engine

Group formation, timed assessment windows, evaluation eligibility and score
aggregation for courses where students rate their groupmates.
"""

__version__ = "1.0.0"
__author__ = "peereval Development Team"
__description__ = "Peer-evaluation and course group engine"
