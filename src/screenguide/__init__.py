"""screenguide -- Real-time screen guidance relay.

This package relays low-frame-rate screen captures and chat text from a
client to a vision-capable language model and streams back short,
actionable guidance. A per-connection session core decides when a new
frame is worth analyzing and suppresses near-duplicates.
"""

__version__ = "0.1.0"
