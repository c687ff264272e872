"""Domain layer - framework-independent MentorLink rules"""
