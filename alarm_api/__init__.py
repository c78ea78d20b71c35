"""
Sync Alarm API - serwer współdzielonej listy alarmów z obecnością urządzeń
"""
