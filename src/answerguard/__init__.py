"""answerguard: accuracy and compute governance for language-model answers.

Decides how many candidates to sample for a query, when to stop sampling,
how confident the final answer is, and whether to present it directly,
hedge it, escalate it, or abstain.
"""

__version__ = "0.4.0"
