"""JobRunner 구현 모음 (load_runners()가 하위 모듈을 재귀 import)"""
