# mipsmachine

`mipsmachine` simulates the hardware of a small MIPS R2000/R3000
workstation. An operating-system kernel written in Python can run on top
of it. The package is a library and has these modules:

- `mipsmachine.machine`: `Machine`, the CPU. It holds the registers,
  executes user instructions with delayed loads and branch-delay program
  counters, and traps into a kernel-supplied exception handler. It also
  has a small single-stepping debugger.
- `mipsmachine.instructions`: the instruction decoder (`Instruction`,
  `OpCode`, `Format`) and the R2000 multiply (`mult`).
- `mipsmachine.translate`: main memory and address translation (`Mmu`,
  `TranslationEntry`, `ExceptionType`, `TranslationFault`). Translation
  goes through either a linear page table or a small software-loaded TLB,
  and sets the use, dirty and read-only bits.
- `mipsmachine.interrupt`: simulated interrupts and the simulated clock
  (`Interrupt`, `IntStatus`, `MachineStatus`, `IntType`,
  `PendingInterrupt`, `MachineHalted`).
- `mipsmachine.timer`: `Timer`, a periodic or randomised timer device.
- `mipsmachine.disk`: `Disk`, a sector-addressed disk stored in a host
  file. Its latency model covers seek, rotation and a track buffer.
- `mipsmachine.console`: `Console`, a character terminal backed by host
  files (standard input and output by default).
- `mipsmachine.network`: `Network` and `PacketHeader`, an unreliable
  fixed-size datagram link carried over Unix-domain sockets.
- `mipsmachine.stats`: `Statistics`, the tick and I/O counters, and the
  timing constants.
- `mipsmachine.host`: checked wrappers over host files, sockets, signals,
  sleeping and the pseudo-random number generator.

Everything runs in simulated time. Time moves forward in three cases:
when interrupts are re-enabled (`Interrupt.set_level`, `enable`), when
`Interrupt.one_tick` runs after a user instruction, and when
`Interrupt.idle` skips ahead to the next pending interrupt.

## Requirements

Python 3.10 or later. There are no third-party dependencies. The disk and
console use ordinary host files. The network needs Unix-domain datagram
sockets, so it works only on POSIX hosts.

## A first look

Decoding an instruction:

```python
from mipsmachine.instructions import Instruction, mult

instr = Instruction.decode(0x20020005)
print(instr.disassemble())               # ADDI r2,r0,5

hi, lo = mult(-3, 7, True)               # high and low words of the product
```

Setting up the clock and a timer:

```python
from mipsmachine.stats import Statistics
from mipsmachine.interrupt import Interrupt, IntStatus
from mipsmachine.timer import Timer

stats = Statistics()
interrupt = Interrupt(stats, on_yield=lambda: None)

def on_tick():
    interrupt.yield_on_return()          # ask for a context switch

timer = Timer(interrupt, on_tick, randomize=False)

interrupt.set_level(IntStatus.ON)        # enabling interrupts advances time
print(stats.summary())
```

Running user code. Address translation needs either a TLB
(`use_tlb=True`) or a page table:

```python
from mipsmachine.machine import Machine, PC_REG, NEXT_PC_REG
from mipsmachine.translate import TranslationEntry

def exception_handler(which):
    print("trap:", which.description)    # the kernel's trap entry point

machine = Machine(interrupt, stats, exception_handler, use_tlb=False, debug=False)
machine.page_table = [TranslationEntry(page, page) for page in range(8)]
machine.write_register(PC_REG, 0)
machine.write_register(NEXT_PC_REG, 4)
machine.one_instruction()                # memory is zero: a no-op shift
```

`Machine.run()` executes instructions in an endless loop and calls
`Interrupt.one_tick()` after each one. It stops only when something
raises. `Interrupt.halt()` prints the statistics and raises
`MachineHalted`. `Interrupt.idle()` does the same when no interrupts are
pending.

If a memory access through `Machine.read_mem` or `write_mem` cannot be
translated, the fault goes to the exception handler first. It is then
raised as `TranslationFault`. A `Machine` created without an exception
handler raises `RuntimeError` on any trap.

With `debug=True`, the machine enters `Machine.debugger()` after each
instruction. The debugger reads from `machine.input` and writes to
`machine.output`. Its commands:

- an empty line executes one instruction
- a number runs until that tick
- `c` runs to completion
- `?` prints help

## Devices

- `Disk` opens its backing file, or creates one of the full disk size.
  The file starts with a magic number, and a file without it raises
  `ValueError`. `read_request` returns the sector's bytes and
  `write_request` stores exactly one sector. Both transfer the data at
  once and schedule the completion interrupt after `compute_latency`
  ticks. Only one request may be in progress at a time. Setting
  `Disk.track_buffer = False` turns off the track buffer.
- `Console.put_char` writes one character. The write handler runs after
  the completion interrupt. The keyboard is polled every `CONSOLE_TIME`
  ticks, and `get_char` returns the buffered character or `None`.
- `Network` binds a socket named `SOCKET_<address>` in the current
  directory. It pads every packet to `MAX_WIRE_SIZE` bytes and drops
  packets at random according to the given reliability. `receive`
  returns the buffered header and data; a header of length 0 means
  nothing was waiting.
- `host.random_init(seed)` seeds the generator that the randomised timer
  and packet loss use.

`Disk`, `Console` and `Network` are context managers and also have a
`close()` method.

## Behaviour worth knowing

The processor reproduces some quirks on purpose:

- `OR` combines `rs` with itself and ignores `rt`.
- `SRL` and `SRLV` shift arithmetically, the same as `SRA` and `SRAV`.
- `LWL`, `LWR`, `SWL` and `SWR` accept only word-aligned addresses and
  raise `RuntimeError` otherwise.
- `DIV` and `DIVU` by zero set HI and LO to 0 instead of trapping.

## What the package does not do

This is hardware only. It has no kernel, no threads or scheduler, no
loader for user programs, no system calls, no file system and no mail
layer over the network. The caller supplies these pieces:

- the exception handler
- the `on_yield` callback that performs a context switch
- the page table or TLB contents
- the device completion handlers

There is no command-line program.

## Running the tests

The test suite uses pytest, which the `test` extra installs.