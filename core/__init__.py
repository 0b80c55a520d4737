"""
Core building blocks shared by the compiler services: configuration, logging
and the automation graph document model.
"""
