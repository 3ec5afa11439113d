"""공통 모듈 (설정, 로깅)"""
