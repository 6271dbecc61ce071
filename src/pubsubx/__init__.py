"""
pubsubx

This package provides an interactive, asynchronous client for the
PubSubX publish/subscribe protocol: a single persistent broker
connection, delimiter framing over the byte stream, subscription
tracking and session restoration after reconnect.
"""
__version__ = "0.1.0"
