"""
MultiFlexi scheduler 진입점

사용법:
    python main.py                         # .env + 환경변수로 데몬 실행
    python main.py --env-file /etc/multiflexi/multiflexi.env
    python main.py --config config/daemon.yaml

MULTIFLEXI_DAEMONIZE=false 이면 due 엔트리를 한 번만 처리하고 종료합니다.
"""

import os
import sys

# Windows 인코딩 설정 (cp949 -> UTF-8)
if sys.platform == "win32":
    os.environ["PYTHONUTF8"] = "1"

from dispatcher.main import run

if __name__ == "__main__":
    run()
