"""
Domain layer for the Razorpay bridge.

Status vocabulary, the mapping from Razorpay states and the Money value
object live here, free of any I/O.
"""
