"""
Network UPS Tools protocol client, parser and polling watchdog.
"""
