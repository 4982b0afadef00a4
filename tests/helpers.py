import io

import openpyxl

HEADER = ["S.No", "Division", "Section", "Coupon No", "Ryot Number", "Ryot Name", "Father Name",
          "Village", "Cane Wt", "Eligible Qty", "Sugar Rate", "Amount"]


def roster_row(sno, ryot, coupon, name="Ramappa", eligible="100", rate="31.5", cane="25000",
               division="KOPPA", section="S1", father="Hanumappa", village="Kuduthini"):
    return [sno, division, section, coupon, ryot, name, father, village, cane, eligible, rate, ""]


def grid_to_csv(grid) -> bytes:
    lines = [",".join("" if c is None else str(c) for c in row) for row in grid]
    return ("\n".join(lines) + "\n").encode("utf-8")


def grid_to_xlsx(grid) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    for row in grid:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
