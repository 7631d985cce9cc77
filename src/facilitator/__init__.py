"""
HTTP transport for the x402 facilitator
"""
