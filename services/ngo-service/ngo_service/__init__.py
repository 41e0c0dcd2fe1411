"""
NGO Service

Account surface for NGOs on the blood donation platform. It handles NGO
registration and sessions, profile management, donation camps and centers,
and NGO handling of hospital blood requests.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "High Five"
__description__ = "NGO account service for the blood donation platform"
