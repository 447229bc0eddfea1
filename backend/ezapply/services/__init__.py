"""EZApply - Services"""
