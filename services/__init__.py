"""
Services package for the scriptforge compiler.
"""
