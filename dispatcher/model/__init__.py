"""Dispatcher 모델"""
