# main.py
import os
import sys
import logging


def setup_logging():
    """Настраивает логирование ДО всех операций с ротацией"""
    from core.config_manager import get_app_data_dir
    from logging.handlers import RotatingFileHandler

    app_data_dir = get_app_data_dir()
    logs_dir = app_data_dir / "logs"
    logs_dir.mkdir(exist_ok=True)

    log_file = logs_dir / "redio.log"

    # Ротирующий обработчик: макс 5MB, 5 резервных копий
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        handlers=[console_handler, file_handler]
    )


logger = logging.getLogger(__name__)


def setup_exception_handler():
    """Настраивает глобальный обработчик исключений"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Необработанное исключение:",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler


def main():
    """Основная функция приложения"""
    setup_logging()
    setup_exception_handler()

    from core.config_manager import get_config
    from core.proxy_manager import ProxyManager

    logger.info("🚀 Redio Pro Ultra Started")

    config = get_config()
    manager = ProxyManager(config)
    return_code = manager.run()

    if return_code != 0:
        logger.error(f"❌ Не удалось запустить сервер: {manager.last_error_details}")
    return return_code


if __name__ == "__main__":
    sys.exit(main())
