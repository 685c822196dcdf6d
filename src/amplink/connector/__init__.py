"""
Connectors describe an endpoint and open conduits to it. A connector can be connected and
disconnected repeatedly, each connection giving a new conduit.
"""
