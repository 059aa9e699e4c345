"""Restaurant back-office API"""
