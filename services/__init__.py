"""Domain operations.

Every function takes the calling actor explicitly.  Queries answer empty
results when the actor may not see the band; mutations raise.
"""
