"""
Charts for proportion tables and raw observations (matplotlib).
"""
