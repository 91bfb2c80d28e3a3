"""Address, unit, ABI and gas helpers"""
