"""Appeal Engine - Services"""
