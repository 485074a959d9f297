"""SIP message parsing, INVITE transactions, per-dialog virtual sockets and G.711 coding."""

__version__ = "0.1.0"