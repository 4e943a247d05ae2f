"""
Sales leaderboard: members log monthly policy counts; the board ranks the last three months.
"""
