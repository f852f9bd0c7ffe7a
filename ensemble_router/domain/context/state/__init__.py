# Readiness state = the user's short-term posture toward deeper engagement.

# It is inferred from the current utterance only, through one rule table
# shared by every caller (see lexicon.py). A learned classifier can replace
# the lexical one behind the StateInferencer interface.
