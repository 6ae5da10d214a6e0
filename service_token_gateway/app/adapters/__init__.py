"""
Adapters for the token gateway's external collaborators.
"""
