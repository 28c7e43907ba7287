"""
Recommendation request feed.

Responsibilities:
- Read the public request feed with hierarchical location and business-type filters.
- Load a single request and its responses by share token.
- Create requests and guest responses.
- Remember which requests the current browser session created.
"""
