import json
import sys

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from config.config import Config, DataMode
from orchestrator.core import WidgetOrchestrator
from utils.logger import set_debug_enabled


def print_event(event: dict) -> None:
    """
    Render one pipeline event on the console.

    Args:
        event: Event dict as produced by WidgetOrchestrator.run
    """
    kind = event.get("type")
    if kind == "progress":
        subtext = f" - {event['subtext']}" if event.get("subtext") else ""
        sys.stdout.write(f"\r\033[93m[{event['progress']:>3}%] {event['message']}{subtext}\033[0m\n")
    elif kind == "agent_event":
        sys.stdout.write(f"        {event['message']}\n")
    elif kind == "plan":
        plan = event["plan"]
        sys.stdout.write(
            f"        plan: {plan['widgetType']} from {plan['dataSource']} ({plan['dataStructure']})\n"
        )
    elif kind == "complete":
        response = event["response"]
        if response.get("error"):
            print(f"\nError: {response.get('textResponse')}")
        else:
            print("\nWidget:")
            print(json.dumps(response.get("widget"), indent=2, ensure_ascii=False))
    sys.stdout.flush()


def main():
    config = Config()
    for problem in config.validate():
        print(f"Warning: {problem}")

    set_debug_enabled(config.AGENT_DEBUG)

    data_mode = None
    try:
        orchestrator = WidgetOrchestrator(config=config)
    except Exception as e:
        print(f"Error initializing orchestrator: {str(e)}")
        return

    print("\n=== Widget Generator ===")
    print(f"Agent: {config.get_model_info()}")
    print("Type 'exit' to quit, 'mode <name>' to pick a data source, or 'help' for commands\n")

    while True:
        try:
            user_input = input("You: ").strip()

            if not user_input:
                continue

            if user_input.lower() in ('exit', 'quit'):
                print("\nGoodbye!")
                break

            if user_input.lower() == 'help':
                print("\n=== Available Commands ===")
                print("help          - Show this help message")
                print("mode <name>   - Force a data source: " + ", ".join(m.value for m in DataMode))
                print("mode auto     - Let the planner choose the data source")
                print("debug on|off  - Toggle agent diagnostics in the debug log")
                print("exit/quit     - Exit the program\n")
                continue

            if user_input.lower() in ('debug on', 'debug off'):
                enabled = user_input.lower().endswith('on')
                set_debug_enabled(enabled)
                print(f"Agent debug: {'on' if enabled else 'off'}\n")
                continue

            if user_input.lower().startswith('mode'):
                name = user_input[4:].strip()
                if name in ('', 'auto'):
                    data_mode = None
                else:
                    try:
                        data_mode = DataMode(name).value
                    except ValueError:
                        print(f"Unknown mode '{name}'\n")
                        continue
                print(f"Data mode: {data_mode or 'auto'}\n")
                continue

            orchestrator.run(user_input, print_event, data_mode=data_mode)
            print()

        except KeyboardInterrupt:
            print("\nExiting...")
            break


if __name__ == "__main__":
    main()
