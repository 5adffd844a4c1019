"""
Discovery module - which memories a viewer may see.

Components:
- geo: Planar distance between (latitude, longitude) pairs
- policy: Per-access-type visibility predicates
- service: Nearby / public / recent queries and the global emotion map
"""
