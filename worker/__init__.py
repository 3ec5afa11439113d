"""Worker 모듈 - 프로세스 격리 job 실행"""
