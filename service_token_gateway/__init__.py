"""
OAuth2 token-exchange gateway service.
"""
