# Time periods in seconds
DAY = 86400
WEEK = 7 * DAY
EPOCH_DURATION = 28 * DAY
YEAR = 13 * EPOCH_DURATION  # 364 days, a whole number of epochs
MAX_LOCK_DURATION = 2 * YEAR

# Fixed-point factor carried by slope and bias
SLOPE_MULTIPLIER = 10 ** 18

# Token decimals
DECIMALS = 10 ** 18

# Delegate / switch / undelegate calls allowed per lock per epoch
MAX_DELEGATE_ACTIONS_PER_EPOCH = 2
