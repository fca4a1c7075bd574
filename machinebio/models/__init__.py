# Importing the package registers every table on Base.metadata
from .user import User
from .catalog import Make, CarModel, Generation
from .car import Car, HistoryEntry
from .performance import PerformanceTime
from .spot import Spot, Guess, SpotRating, SpotComment
