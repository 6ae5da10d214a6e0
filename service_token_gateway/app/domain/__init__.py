"""
Token exchange domain: request/response models and the exchange service.
"""
