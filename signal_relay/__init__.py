"""Signaling relay for consent-gated peer-to-peer audio/video rooms"""
