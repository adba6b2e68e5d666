"""Core building blocks of the kernel.

Modules in this package are independent of any concrete project layout and
focused on configuration, container assembly, request dispatch and error
handling.
"""
