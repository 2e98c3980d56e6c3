"""
blobline - Single-client text file server over a line protocol.

A server owns a local directory and serves one connected client that
uploads and retrieves named text blobs, one LF-terminated line per
request and per reply.
"""

__version__ = '0.1.0'
