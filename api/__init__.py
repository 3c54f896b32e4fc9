"""
HTTP trigger surface for the batch engine
"""
