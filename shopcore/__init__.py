"""
Shop Core - order, inventory, coupon and refund consistency layer
"""
__version__ = "1.0.0"
