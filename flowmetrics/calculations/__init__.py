"""
Dashboard calculations (throughput, lead time, WIP, service level, fitness criteria).

Each calculation class is constructed per request with its collaborators and
returns plain result objects; errors from the state provider propagate unchanged.
"""
