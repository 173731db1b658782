"""
WhatsApp Tracker

Records the messages, contacts and media of a WhatsApp Web session into a
relational store, and replays them from the command line.
"""

__version__ = "1.0.0"
