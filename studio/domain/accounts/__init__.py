"""Account domain - Login and current user"""
