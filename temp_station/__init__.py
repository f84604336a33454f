# -*- coding: utf-8 -*-
"""
@file __init__.py
@brief Temp Station backend: thu thập nhiệt độ và lượt kết nối captive portal từ ESP8266.
"""

__version__ = "1.0.0"
