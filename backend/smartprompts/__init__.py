"""
SmartPrompts backend: prompt optimization with tiered quotas and Stripe billing.
"""
