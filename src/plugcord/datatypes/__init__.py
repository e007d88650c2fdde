"""
Value types shared across plugcord: snowflake ids, evaluation contexts and cases.
"""
