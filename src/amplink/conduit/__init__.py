"""
The conduit package provides an abstraction of a bi-directional byte stream to a connected endpoint.
The concrete implementation is a TCP socket.
"""
